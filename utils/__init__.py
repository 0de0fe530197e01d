# File: tank_volume_engine/utils/__init__.py
