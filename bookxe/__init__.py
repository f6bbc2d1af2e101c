"""Vehicle booking approval service."""
