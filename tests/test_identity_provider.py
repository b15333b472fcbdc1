#!/usr/bin/env python3
"""
Tests for the HTTP identity provider client.

Run with:
    python -m pytest tests/test_identity_provider.py
"""
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import requests

from identity_provider import (CONFIRMATION_SUBJECT, HttpIdentityProvider,
                               NotificationError)


def _provider(**kwargs):
    return HttpIdentityProvider('https://id.example.com/api/', service_token='svc-token',
                                confirm_email_url='https://veil.example.com/Account/ConfirmEmail',
                                timeout=4, **kwargs)


class TestSendConfirmation(unittest.TestCase):

    @patch('identity_provider.requests.post')
    def test_payload(self, mock_post):
        mock_post.return_value = MagicMock(status_code=202)
        _provider().send_confirmation('member-1', 'new@x.com', 'abc/123')

        url = mock_post.call_args.args[0]
        kwargs = mock_post.call_args.kwargs
        self.assertEqual(url, 'https://id.example.com/api/members/member-1/messages')
        self.assertEqual(kwargs['timeout'], 4)
        self.assertEqual(kwargs['headers'], {'Authorization': 'Bearer svc-token'})
        payload = kwargs['json']
        self.assertEqual(payload['to'], 'new@x.com')
        self.assertEqual(payload['subject'], CONFIRMATION_SUBJECT)
        self.assertIn('userId=member-1', payload['html'])
        self.assertIn('code=abc%2F123', payload['html'])

    def test_confirmation_link(self):
        link = _provider().confirmation_link('member-1', 'c0de')
        self.assertEqual(link, 'https://veil.example.com/Account/ConfirmEmail?userId=member-1&code=c0de')

    @patch('identity_provider.requests.post')
    def test_http_error_raises(self, mock_post):
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.HTTPError('503 Server Error')
        mock_post.return_value = resp
        with self.assertRaises(NotificationError):
            _provider().send_confirmation('member-1', 'new@x.com', 'code')

    @patch('identity_provider.requests.post')
    def test_timeout_raises(self, mock_post):
        mock_post.side_effect = requests.Timeout('read timed out')
        with self.assertRaises(NotificationError):
            _provider().send_confirmation('member-1', 'new@x.com', 'code')


class TestInvalidateSession(unittest.TestCase):

    @patch('identity_provider.requests.post')
    def test_revoke_endpoint(self, mock_post):
        mock_post.return_value = MagicMock(status_code=204)
        _provider().invalidate_session('member-1')
        self.assertEqual(mock_post.call_args.args[0],
                         'https://id.example.com/api/members/member-1/sessions/revoke')

    @patch('identity_provider.requests.post')
    def test_connection_error_raises(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('refused')
        with self.assertRaises(NotificationError):
            _provider().invalidate_session('member-1')

    @patch('identity_provider.requests.post')
    def test_no_auth_header_without_service_token(self, mock_post):
        mock_post.return_value = MagicMock(status_code=204)
        HttpIdentityProvider('https://id.example.com').invalidate_session('member-1')
        self.assertEqual(mock_post.call_args.kwargs['headers'], {})


class TestCurrentUser(unittest.TestCase):

    def test_no_session_token(self):
        with patch('identity_provider.requests.get') as mock_get:
            self.assertIsNone(_provider().get_current_user_id())
        mock_get.assert_not_called()

    @patch('identity_provider.requests.get')
    def test_resolves_user(self, mock_get):
        resp = MagicMock()
        resp.json.return_value = {'user_id': 'member-1'}
        mock_get.return_value = resp
        provider = _provider().for_session('sess-abc')
        self.assertEqual(provider.get_current_user_id(), 'member-1')
        self.assertEqual(mock_get.call_args.kwargs['headers'],
                         {'Authorization': 'Bearer sess-abc'})
        self.assertEqual(mock_get.call_args.args[0], 'https://id.example.com/api/session')

    @patch('identity_provider.requests.get')
    def test_provider_error_means_anonymous(self, mock_get):
        mock_get.side_effect = requests.Timeout('slow')
        self.assertIsNone(_provider(session_token='sess-abc').get_current_user_id())


if __name__ == '__main__':
    unittest.main()
