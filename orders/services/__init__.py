"""Order-side services. Import from the submodules directly."""
