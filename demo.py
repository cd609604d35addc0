from docrules import DocRulesEngine, Keypair, issue_token, load_settings
from docrules.log import configure_logging
import os

# Clean up previous demo db if exists
if os.path.exists("demo.db"):
    os.remove("demo.db")

configure_logging(load_settings().log_level, json=False)
print("--- docrules Live Demo ---")

# 1. Initialize Engine with the packaged Unlock App rules
issuer = Keypair.generate()
engine = DocRulesEngine("demo.db", issuer_public_key=issuer.get_public_bytes())
print(f"[+] Engine initialized with demo.db ({len(engine.rules)} rule sets)")

# 2. Seed a user document for the helper predicates
engine.documents.put("users/alice", {"codinome": "Fox", "isMinor": True, "onboardingCompleted": True})
print("[+] Stored users/alice")

# 3. Issue a token for Alice
token = issue_token(issuer, "alice")
print(f"[+] Issued token for alice (key {token.key_id[:8]}...)")

# 4. Authorize
decision = engine.authorize_token(token, "read", "users/alice/missions/m1")
print(f"[+] alice reads own mission: {decision.reason}")

decision = engine.authorize_token(token, "create", "age_restricted_interactions/i1", proposed={"with": "bob"})
print(f"[+] alice creates restricted interaction: {decision.reason}")

decision = engine.authorize_token(None, "read", "shop_items/hat")
print(f"[+] anonymous reads shop item: {decision.reason}")

decision = engine.authorize_token(token, "update", "security_logs/l1", resource={}, proposed={})
print(f"[+] alice updates security log: {decision.reason}")

# 5. Verify Decision Log
log = engine.get_decision_log()
print(f"[+] Decision Log Entries: {len(log)}")
print(f"    - Intact: {engine.verify_audit_integrity()}")

engine.close()
if os.path.exists("demo.db"):
    os.remove("demo.db")
print("--- Demo Complete ---")
