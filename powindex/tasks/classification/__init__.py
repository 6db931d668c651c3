# powindex/tasks/classification/__init__.py
"""
Skill and contribution-impact classification over a remote text classifier.
"""

from .classifier_gateway import ClassifierGateway
from .prompts import ClassifierPromptGenerator

__all__ = [
    'ClassifierGateway',
    'ClassifierPromptGenerator'
]
