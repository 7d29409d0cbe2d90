# config/__init__.py
# ============================================================
# Configuration package for the ID card merge pipeline.
# Provides centralized, validated settings loaded from .env file.
#
# Usage:
#   from config.settings import settings
#   print(settings.recognition_timeout_s)
# ============================================================

from config.settings import Settings, settings

__all__ = ["Settings", "settings"]
