"""
Services package for the PortaPro backend.
Contains the repositories and domain services behind the API blueprints.
"""
