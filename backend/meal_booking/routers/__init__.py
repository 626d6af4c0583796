"""
HTTP routers. Meal routes belong to the request layer; only health is served here.
"""
