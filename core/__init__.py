# File: tank_volume_engine/core/__init__.py
