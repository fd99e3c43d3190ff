"""NutriLens AI - pipeline core: state, errors, service handles and orchestration."""
