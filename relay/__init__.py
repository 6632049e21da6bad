"""
Storefront relay for the Chug Champ leaderboard.

This package provides a FastAPI application that forwards storefront
requests to Backblaze B2 (video uploads) and Shopify metaobjects
(leaderboard submissions), caching the upstream credentials in memory.
"""
