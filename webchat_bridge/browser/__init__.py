"""
Browser automation seam.

The core depends only on the BrowserDriver protocol; PlaywrightDriver and the
launch helpers are the default implementation.
"""
