"""Mind Mosaic mood journal service."""
