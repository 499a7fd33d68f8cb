"""End to end tests for the site build pipeline."""

import logging

import pytest
from sitebuilder.build import build_config, main
from sitebuilder.core import PageRegistry, RegistryStateError
from sitebuilder.services.compression import CommandResult, CompressionError
from sitebuilder.services.config_writer import load_config_file


class TestBuildConfig:
    """Test the whole pipeline against a site tree."""

    def test_two_module_site(self, paths, make_module):
        """Test CSS from one module, JS from another, no compressors configured."""
        make_module("a", css=".x{color:red}")
        make_module("b", js="var y=1;")

        result = build_config(paths, settings={"modules": "a,b"})
        lib = paths.js_lib.read_text()

        config = load_config_file(paths.config)
        assert config["modules"] == "a,b"
        assert config["handler_modules"] == {}
        assert config["output_modules"] == {}
        assert all(values == [] for values in config["input_filters"].values())
        assert len(config["input_filters"]) == 6

        assert paths.css.read_text() == ".x{color:red}"
        assert paths.js.read_text() == lib + "var y=1;"
        assert (paths.output / "site.css").read_text() == ".x{color:red}"
        assert (paths.output / "site.js").read_text() == lib + "var y=1;"
        assert (paths.output / "index.php").exists()
        assert result.config == config

    def test_wildcard_binding_reaches_later_modules(self, paths, make_module):
        """Test that an all-pages handler queued first lands on pages registered later."""
        make_module("core", setup="""
            def setup(site):
                site.add_handler_to_all_pages('check_login')
                site.add_output_to_all_pages('page_footer', logged=False)
                return {'allowed_get': ['page']}
        """)
        make_module("home", setup="""
            def setup(site):
                site.add_handler('home', 'load_home')
                site.add_output('home', 'home_content')
                return {'allowed_pages': ['home'], 'allowed_get': ['list_path']}
        """)
        make_module("settings", setup="""
            def setup(site):
                site.add_handler('settings', 'load_settings')
                site.add_handler('settings', 'validate', marker='load_settings', placement='before')
                return {'allowed_pages': ['settings']}
        """)

        build_config(paths, settings={"modules": "core,home,settings"})
        config = load_config_file(paths.config)

        assert list(config["handler_modules"]["home"]) == ["load_home", "check_login"]
        assert list(config["handler_modules"]["settings"]) == ["validate", "load_settings", "check_login"]
        assert config["handler_modules"]["home"]["check_login"]["source"] == "core"
        assert config["output_modules"]["home"]["page_footer"] == {"logged": False, "source": "core"}
        assert config["input_filters"]["allowed_get"] == ["page", "list_path"]
        assert config["input_filters"]["allowed_pages"] == ["home", "settings"]

    def test_assets_and_entry(self, paths, make_module):
        make_module("core", js="var a = '\\n';", assets={"logo.png": "png"})

        result = build_config(paths, settings={"modules": "core"})
        lib = paths.js_lib.read_text()

        assert (paths.output / "modules" / "core" / "assets" / "logo.png").read_text() == "png"
        index = (paths.output / "index.php").read_text()
        assert "define('DEBUG_MODE', false);" in index
        assert result.production.cache_id in index
        assert paths.js.read_text() == lib + "var a = '\\\\n';"

    def test_external_compressor(self, paths, make_module):
        make_module("core", js="var a = 1;", css=".a { }")
        calls = []

        def runner(command, text, timeout):
            calls.append(command)
            return CommandResult(0, f"[{command}]\n")

        build_config(paths, settings={"modules": "core", "js_compress": "jsmin", "css_compress": "cssmin"},
                     runner=runner)
        lib = paths.js_lib.read_text()

        assert paths.js.read_text() == lib + "[jsmin]"
        assert paths.css.read_text() == "[cssmin]"
        assert calls == ["cssmin", "jsmin"]

    def test_failing_compressor_strict(self, paths, make_module):
        make_module("core", css=".a { }")

        def runner(command, text, timeout):
            return CommandResult(127, "")

        with pytest.raises(CompressionError):
            build_config(paths, settings={"modules": "core", "css_compress": "nope"}, runner=runner, strict=True)

    def test_config_map(self, paths, make_module):
        make_module("core", setup="def setup(site):\n    site.add_handler('home', 'load')\n")
        build_config(paths, settings={"modules": "core"}, config_map=True)
        assert "load" in paths.config_map.read_text()

    def test_settings_read_from_file(self, paths, make_module):
        make_module("core", css=".a{}")
        paths.settings.write_text("modules=core\ntheme=dark\n")
        build_config(paths)
        assert load_config_file(paths.config)["theme"] == "dark"

    def test_reused_registry_rejected(self, paths, make_module):
        """Test that a finalized registry cannot feed a second build without reset."""
        make_module("core", setup="def setup(site):\n    site.add_handler('home', 'load')\n")
        handlers, outputs = PageRegistry("handler"), PageRegistry("output")
        build_config(paths, settings={"modules": "core"}, handlers=handlers, outputs=outputs)

        with pytest.raises(RegistryStateError):
            build_config(paths, settings={"modules": "core"}, handlers=handlers, outputs=outputs)

        handlers.reset()
        outputs.reset()
        assert build_config(paths, settings={"modules": "core"}, handlers=handlers, outputs=outputs)


class TestNothingToBuild:
    """Test the recovered configuration-absence cases."""

    def test_no_settings(self, paths, caplog):
        with caplog.at_level(logging.WARNING):
            assert build_config(paths) is None
        assert "No settings found" in caplog.text
        assert not paths.config.exists()
        assert not paths.output.exists()

    def test_no_modules(self, paths, caplog):
        with caplog.at_level(logging.WARNING):
            assert build_config(paths, settings={"theme": "dark"}) is None
        assert "No modules configured" in caplog.text
        assert not paths.config.exists()


class TestMain:
    """Test the command line entry point."""

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr("sitebuilder.build.setup_logging", lambda *args, **kwargs: None)

    def test_build(self, site_root, make_module):
        make_module("core", css=".a{}")
        (site_root / "site.ini").write_text("modules=core\n")

        assert main(["--root", str(site_root), "--config-map"]) == 0
        assert (site_root / "site" / "index.php").exists()
        assert (site_root / "config_map.html").exists()

    def test_nothing_to_build(self, site_root):
        assert main(["--root", str(site_root)]) == 0
        assert not (site_root / "site.rc").exists()

    def test_failure_exit_code(self, site_root, make_module):
        make_module("core", setup="def setup(site):\n    raise RuntimeError('boom')\n")
        (site_root / "site.ini").write_text("modules=core\n")
        assert main(["--root", str(site_root)]) == 1

    def test_settings_override(self, site_root, make_module, tmp_path_factory):
        make_module("core", css=".a{}")
        other = tmp_path_factory.mktemp("cfg") / "prod.yaml"
        other.write_text("modules: [core]\n")
        assert main(["--root", str(site_root), "--settings", str(other)]) == 0
        assert load_config_file(site_root / "site.rc")["modules"] == ["core"]
