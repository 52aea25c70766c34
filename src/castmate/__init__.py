"""castmate - screen and webcam compositing recorder."""
