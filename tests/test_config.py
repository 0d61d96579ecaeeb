from config import Settings, load_secrets_from_files


def test_from_env(monkeypatch):
    monkeypatch.setenv('RECOGNIZER_API_ENDPOINT', 'https://r.example.com/')
    monkeypatch.setenv('TOKEN_CIPHER_KEY', 'k' * 16)
    monkeypatch.setenv('CAROUSEL_MAX_COLUMNS', '3')
    monkeypatch.setenv('ENABLE_TEXT_QUERY', 'true')
    monkeypatch.setenv('THUMBNAIL_ALLOWED_HOSTS', 'a.example.com, b.example.com')
    monkeypatch.delenv('CALLBACK_PATH', raising=False)
    s = Settings.from_env()
    assert s.recognizer_endpoint == 'https://r.example.com'
    assert s.token_cipher_key == b'k' * 16
    assert s.carousel_max_columns == 3
    assert s.enable_text_query is True
    assert s.callback_path == '/callback'
    assert s.thumbnail_hosts == ('a.example.com', 'b.example.com')
    assert s.user_email('U1') == 'U1@line.me'


def test_invalid_numbers_fall_back(monkeypatch):
    monkeypatch.setenv('CAROUSEL_MAX_COLUMNS', 'five')
    monkeypatch.setenv('RECOGNIZER_TIMEOUT', 'slow')
    s = Settings.from_env()
    assert s.carousel_max_columns == 5
    assert s.recognizer_timeout == 10.0


def test_secret_files(monkeypatch, tmp_path):
    (tmp_path / 'TOKEN_CIPHER_KEY').write_text('from-file-key-16\n', encoding='utf-8')
    monkeypatch.delenv('TOKEN_CIPHER_KEY', raising=False)
    load_secrets_from_files(['TOKEN_CIPHER_KEY'], base_path=str(tmp_path))
    assert Settings.from_env().token_cipher_key == b'from-file-key-16'


def test_image_hosts_default_to_recognizer_host():
    assert Settings(recognizer_endpoint='https://r.example.com:8443/api').image_hosts() == ('r.example.com',)
    assert Settings().image_hosts() == ()
    assert Settings(recognizer_endpoint='https://r.example.com', thumbnail_hosts=('cdn.example.com',)).image_hosts() == ('cdn.example.com',)
