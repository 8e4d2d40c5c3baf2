"""dlwatch - observe Google Tag Manager dataLayer activity in a live browser session."""

__version__ = "1.0.0"
