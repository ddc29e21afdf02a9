"""
White Ninja AI CLI - run builds against a White Ninja server from the terminal
"""
