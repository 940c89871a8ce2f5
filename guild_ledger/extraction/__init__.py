"""Rule-based extraction, coercion and record assembly."""
