import unittest, pathlib, sys, socket

import requests

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aemeye.pipeline.network import BodyDecodeError, ProbeTimeout, classify_error

class TestErrorClassification(unittest.TestCase):
    def test_timeout(self):
        self.assertEqual(classify_error(requests.ConnectTimeout('connect timed out')), 'timeout')
        self.assertEqual(classify_error(ProbeTimeout('body read exceeded 5s')), 'timeout')

    def test_timeout_from_message(self):
        self.assertEqual(classify_error(Exception('Read timed out. (read timeout=5)')), 'timeout')

    def test_dns(self):
        self.assertEqual(classify_error(requests.ConnectionError(
            "Failed to resolve 'nohost.invalid' ([Errno -2] Name or service not known)")), 'dns')
        self.assertEqual(classify_error(socket.gaierror(-2, 'Name or service not known')), 'dns')

    def test_ssl(self):
        self.assertEqual(classify_error(requests.exceptions.SSLError('handshake failure')), 'ssl')
        self.assertEqual(classify_error(Exception('SSL certificate error')), 'ssl')

    def test_conn(self):
        self.assertEqual(classify_error(requests.ConnectionError('[Errno 111] Connection refused')), 'conn')
        self.assertEqual(classify_error(Exception('Connection refused by host')), 'conn')

    def test_redirects(self):
        self.assertEqual(classify_error(requests.TooManyRedirects('Exceeded 10 redirects.')), 'redirects')

    def test_invalid_url(self):
        self.assertEqual(classify_error(requests.exceptions.InvalidURL('Invalid URL')), 'invalid_url')
        self.assertEqual(classify_error(requests.exceptions.MissingSchema('No scheme supplied')), 'invalid_url')

    def test_body(self):
        self.assertEqual(classify_error(BodyDecodeError('cannot decode body as utf-8')), 'body')
        self.assertEqual(classify_error(requests.exceptions.ChunkedEncodingError('broken')), 'body')

    def test_other(self):
        self.assertEqual(classify_error(Exception('weird unknown issue happened')), 'other')

if __name__ == '__main__':
    unittest.main()
