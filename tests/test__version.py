def test_version_module_sanity():
    import qwery_mcp._version as v

    # Existence checks
    assert hasattr(v, "__version__")
    assert hasattr(v, "__version_tuple__")
    assert hasattr(v, "version")
    assert hasattr(v, "version_tuple")
    # Type checks
    assert isinstance(v.__version__, str)
    assert isinstance(v.__version_tuple__, tuple)
    # Aliases agree
    assert v.__version__ == v.version
    assert v.__version_tuple__ == v.version_tuple
    assert ".".join(str(part) for part in v.version_tuple) == v.version


def test_package_version_matches_internal():
    import qwery_mcp
    import qwery_mcp._version as v

    assert qwery_mcp.__version__ == v.__version__
