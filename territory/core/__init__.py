"""
Core Package

This package contains the run-to-territory computation engine.

Structure:
- geo/ - Haversine distance, bearing and bounding boxes
- grid/ - Geohash tile grid and polygon-to-tile scanning
- validation/ - Anti-cheat trace validation
- claim/ - Claim polygon buffering and ownership resolution
- pipeline.py - Entry points for the ingestion layer

Usage:
Core modules are pure and hold no state across calls. Do not import API or
storage modules from core.
"""
