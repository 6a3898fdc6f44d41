"""
Mirror — keep the local bare mirror configured and freshly fetched.
"""
