"""HTTP configuration surface."""
