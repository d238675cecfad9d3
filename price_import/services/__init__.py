"""Services for the price import pipeline."""
