# File: tank_volume_engine/data/__init__.py
