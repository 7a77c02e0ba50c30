"""Engine core: shared lifecycle machinery and deployment configuration."""
