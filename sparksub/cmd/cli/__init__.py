"""
Sub functionalities of the sparksub CLI
"""

from .config import config_app
