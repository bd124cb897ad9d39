# ProjectFlow HTTP layer.
# Created: 2026-10-12
#
# OAuth 2.1 authorization server endpoints at the site root, discovery
# documents under /.well-known/, and first-party resource routes at /api/v1/.
