"""HTTP access to each group's single shared note."""
