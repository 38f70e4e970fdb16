"""JSON API blueprints. Each package exposes its Blueprint object for create_app()."""
