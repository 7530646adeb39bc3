class InvalidSignalError(ValueError):
  """Client supplied an empty identity, an empty payload or an out of range value."""

class JanusError(Exception):
  """The Janus REST API failed or replied with a janus error message."""

  def __init__(self, reason: str, code: int = None):
    super().__init__(reason)
    self.reason = reason
    self.code = code

class EchoSessionError(Exception):
  """An echo test could not be completed, the reason is safe to send to the client."""

  def __init__(self, reason: str):
    super().__init__(reason)
    self.reason = reason

class EchoTimeoutError(EchoSessionError):
  pass
