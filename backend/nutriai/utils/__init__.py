"""Request utilities shared by routes and services."""
