# File: tank_volume_engine/volume_service/__init__.py
