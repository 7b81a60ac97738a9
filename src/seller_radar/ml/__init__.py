"""
Machine Learning Module

Logistic model weights and the model registry used by seller scoring.
"""
