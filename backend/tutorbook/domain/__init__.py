"""Pure booking and pricing rules with no database or HTTP dependencies."""
