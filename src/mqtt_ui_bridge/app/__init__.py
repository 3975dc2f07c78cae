"""
Host runner: loads a YAML config, connects the client and logs the
notifications it emits until the process is signalled to stop.
"""
