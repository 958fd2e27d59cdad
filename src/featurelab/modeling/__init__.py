"""
Model submission, trainer backends and the model kind registry.
"""
