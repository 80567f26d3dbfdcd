"""Browser automation modules (Playwright).

``session`` owns one isolated browser per attempt, ``form`` is the page
capability (``LookupPage``) with its Playwright implementation,
``navigation`` bounds every page load, ``captcha`` resolves the image
captcha and ``extractor`` reads the result fields.
"""
