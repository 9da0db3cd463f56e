"""Drive the Slack web client through a real Chrome over the DevTools protocol."""
