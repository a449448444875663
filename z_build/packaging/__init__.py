"""Install/export of built components."""
