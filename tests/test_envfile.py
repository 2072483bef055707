from grove.envfile import port_variables_for_project, scan_port_variables


def test_scan_matches_patterns_case_insensitively(tmp_path):
    env = tmp_path / ".env"
    env.write_text("HTTP_PORT=3000\nDB_HOST=localhost\nredis_port=6379\n# X_PORT=1\nAPI_ADDR=x\n")
    assert scan_port_variables(env, ["*_PORT"]) == ["HTTP_PORT", "redis_port"]
    assert scan_port_variables(env, ["*_PORT", "API_*"]) == ["HTTP_PORT", "redis_port", "API_ADDR"]


def test_example_file_preferred_over_env(tmp_path):
    (tmp_path / ".env.example").write_text("WEB_PORT=\n")
    (tmp_path / ".env").write_text("OTHER_PORT=1\n")
    assert port_variables_for_project(tmp_path, ["*_PORT"]) == ["WEB_PORT"]


def test_no_env_files(tmp_path):
    assert port_variables_for_project(tmp_path, ["*_PORT"]) == []
