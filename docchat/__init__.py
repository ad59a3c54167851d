"""docchat: chat with an uploaded document (or the session's last answer)."""
