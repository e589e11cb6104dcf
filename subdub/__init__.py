"""SubDub: batch subtitle generation, translation and dubbing of video files."""

__version__ = "1.0.0"
