"""Camera access and open/close capture control."""
