"""CLI package for Shelf Finder"""
from .main import cli

__all__ = ['cli']
