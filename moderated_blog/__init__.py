"""
django-moderated-blog - editorial workflow for a community blog.

Features:
- Posts, comments and tags that move through pending -> approved/rejected
- Sparse revisions reviewed before they touch the live row
- Tag requests deduplicated by slug and linked to posts once approved
- Viewer-scoped feed with tag/date filters and keyset pagination
"""

__version__ = "0.1.0"
