"""
Utility helpers shared by models and the estimator.
"""

from .parameters import ParameterList

__all__ = [
    'ParameterList',
]
