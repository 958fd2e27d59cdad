"""
Evaluation: metrics, result collection, the experiment log and the
experiment lifecycle.
"""
