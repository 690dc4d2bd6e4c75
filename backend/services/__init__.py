"""
Domain services: platform registry, template system, setting value coercion.
"""
