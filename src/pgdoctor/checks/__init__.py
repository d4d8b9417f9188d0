"""
Built-in checks.

One module per check. Each module exposes metadata(), a Protocol naming
the gateway methods it uses, and a Checker subclass. The set of checks a
run considers is listed explicitly in pgdoctor.registry.
"""
