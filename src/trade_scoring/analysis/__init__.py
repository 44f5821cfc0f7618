"""Pure analysis layer: indicators, patterns, levels, volume profile and regime."""
