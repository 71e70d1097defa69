"""
API façade helpers: caller authentication, authorization and rate-limit
guards composed around each route.
"""
