"""
Blog content backend package.

This package currently focuses on the bulk import subsystem. It exposes
dataclasses for parsed articles and import jobs, a Markdown/frontmatter
parser, validation rules, a content repository boundary, a progress
tracker backed by a TTL key/value store, and an importer that drives
import jobs through preflight, batched per-file processing and completion.
"""
