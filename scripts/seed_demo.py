# scripts/seed_demo.py
#
# Files a lost and a found backpack, then walks the match through verification
# and handover so the whole protocol can be watched in the log.

import logging

from foundit_ai import FoundItService, ReportDraft, Session
from foundit_ai.common.config import Settings
from foundit_ai.common.schemas import ReportType, User

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

service = FoundItService.from_settings(Settings.from_env())

owner = Session(User(name="Asha", email="asha@nmims.in", campus="Shirpur", is_verified=True))
finder = Session(User(name="Ravi", email="ravi@nmims.in", campus="Shirpur", is_verified=True))
for session in (owner, finder):
    service.store.put("users", session.user_id, session.user)

lost, _ = service.submit_report(owner, ReportDraft(
    type=ReportType.LOST,
    category="Wallet/Bags",
    item_name="Blue Backpack",
    description="Blue Nike backpack with a laptop inside",
    location="Library",
))

found, suggestions = service.submit_report(finder, ReportDraft(
    type=ReportType.FOUND,
    category="Wallet/Bags",
    item_name="Blue Backpack",
    description="Found a blue Nike backpack near the reading hall",
    location="Library",
))

if not suggestions:
    print("❌ No match proposed for", found.id)
    raise SystemExit(1)

match = suggestions[0].match
print(f"✅ Match {match.id} proposed with confidence {match.confidence}")

detail = service.match_detail(owner, match.id)
print("Question for the owner:", detail["verification_question"])

answer = input("Answer: ")
outcome = service.submit_answer(owner, match.id, answer)
print("Verification:", outcome.status.value)
if not outcome.success:
    raise SystemExit(0)

view = service.initiate_handover(finder, match.id)
print("Finder sees code:", view["code"])
print("Owner confirms:", service.confirm_handover(owner, match.id, view["code"]))

for message in service.messages(owner, match.id):
    print(f"[{message.sender_id}] {message.text}")
