"""HTTP surface for the runtime bridge."""
