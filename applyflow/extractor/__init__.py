"""Page extraction: form fields, page scripts and completion signals."""
