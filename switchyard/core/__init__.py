"""Core engine: data model, registry, discovery, prober and apply."""
