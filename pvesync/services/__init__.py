"""Services wrapping external tools (pct/qm, vzdump, rclone) and the backup directory."""
