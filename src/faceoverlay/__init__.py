"""Live webcam face detection with a transparent annotation overlay."""
