"""Domain layer: value objects, conversion rules and the error taxonomy.

Nothing here calls into the engine.
"""
