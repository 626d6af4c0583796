"""
Process host: application lifespan.
"""
