import unittest


from subscription_engine.core.security import CurrentUser, _claims_contact, _decide_role


class TestRoleResolution(unittest.TestCase):
    def test_db_admin_wins(self):
        role, reason = _decide_role(email_is_admin=False, claim_is_admin=False, db_role="admin", supabase_role="user")
        self.assertEqual(role, "admin")
        self.assertEqual(reason, "db_profile")

    def test_admin_emails(self):
        role, reason = _decide_role(email_is_admin=True, claim_is_admin=False, db_role="user", supabase_role=None)
        self.assertEqual(role, "admin")
        self.assertEqual(reason, "admin_emails")

    def test_jwt_claim(self):
        role, reason = _decide_role(email_is_admin=False, claim_is_admin=True, db_role="user", supabase_role=None)
        self.assertEqual(role, "admin")
        self.assertEqual(reason, "jwt_claim")

    def test_supabase_profiles_admin(self):
        role, reason = _decide_role(email_is_admin=False, claim_is_admin=False, db_role="user", supabase_role="admin")
        self.assertEqual(role, "admin")
        self.assertEqual(reason, "supabase_profiles")

    def test_db_role_non_admin(self):
        role, reason = _decide_role(email_is_admin=False, claim_is_admin=False, db_role="support", supabase_role=None)
        self.assertEqual(role, "support")
        self.assertEqual(reason, "db_profile")

    def test_default_user(self):
        role, reason = _decide_role(email_is_admin=False, claim_is_admin=False, db_role=None, supabase_role=None)
        self.assertEqual(role, "user")
        self.assertEqual(reason, "default")

    def test_current_user_admin_flag(self):
        self.assertTrue(CurrentUser(id="a", email="", role="Admin").is_admin)
        self.assertFalse(CurrentUser(id="u", email="", role="user").is_admin)


class TestClaimsContact(unittest.TestCase):
    def test_reads_user_metadata(self):
        name, phone = _claims_contact({"user_metadata": {"full_name": "Amina W", "phone": "0712345678"}})
        self.assertEqual(name, "Amina W")
        self.assertEqual(phone, "0712345678")

    def test_falls_back_to_top_level_phone(self):
        name, phone = _claims_contact({"phone": "254712345678", "user_metadata": "junk"})
        self.assertEqual(name, "")
        self.assertEqual(phone, "254712345678")


if __name__ == "__main__":
    unittest.main()
