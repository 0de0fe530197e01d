# File: tank_volume_engine/config/__init__.py
