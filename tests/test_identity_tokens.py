import unittest
from datetime import timedelta

from jose import jwt

from patch_api.core.security import ALGORITHM, IdentityError, account_from_token, issue_identity_token

SECRET = "unit-secret"


class IdentityTokenTests(unittest.TestCase):
    def test_account_is_read_back(self):
        token = issue_identity_token("acct-9", SECRET, timedelta(minutes=1))
        self.assertEqual(account_from_token(token, SECRET), "acct-9")

    def test_custom_claim(self):
        token = issue_identity_token("acct-9", SECRET, timedelta(minutes=1), claim="org_id")
        self.assertEqual(account_from_token(token, SECRET, claim="org_id"), "acct-9")
        with self.assertRaises(IdentityError) as ctx:
            account_from_token(token, SECRET)
        self.assertEqual(str(ctx.exception), "Identity token has no account")

    def test_wrong_secret_and_expired_tokens_are_rejected(self):
        cases = [
            issue_identity_token("acct-9", "other-secret", timedelta(minutes=1)),
            issue_identity_token("acct-9", SECRET, timedelta(minutes=-1)),
            "not-a-token",
        ]
        for token in cases:
            with self.subTest(token=token):
                with self.assertRaises(IdentityError) as ctx:
                    account_from_token(token, SECRET)
                self.assertEqual(str(ctx.exception), "Invalid identity token")

    def test_blank_account_is_rejected(self):
        token = jwt.encode({"account": "  "}, SECRET, algorithm=ALGORITHM)
        with self.assertRaises(IdentityError):
            account_from_token(token, SECRET)


if __name__ == "__main__":
    unittest.main()
