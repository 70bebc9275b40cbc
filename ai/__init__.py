"""AI module: provider adapters, prompt builders and task schemas."""
