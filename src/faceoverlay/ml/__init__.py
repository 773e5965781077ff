"""Detection models and the inference pool."""
