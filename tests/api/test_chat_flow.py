"""Fluxo completo: abertura pré-preenchida, coleta, geração e estatísticas."""

from __future__ import annotations

import json

from fastapi.testclient import TestClient

from tests.helpers.fakes import FakeProvider, auth_headers
from tests.helpers.samples import ACME_APPLICATION, fields

SESSION_ID = "acme-session-01"


def test_acme_application_flow(client: TestClient, fake_provider: FakeProvider) -> None:
    headers = auth_headers("founder")
    fake_provider.reply(
        "chat",
        "Welkom Acme BV! Vertel eens over uw project.",
        "Wat maakt de oplossing technisch nieuw?",
        "Dank u, ik heb genoeg informatie.",
    )
    fake_provider.reply(
        "extraction",
        json.dumps(fields("projectTitle", "projectType", "problemDescription", "companyInfo")),
        json.dumps(
            fields(
                "proposedSolution",
                "technicalChallenges",
                "innovationAspects",
                "timeline",
                "teamSize",
            )
        ),
    )
    fake_provider.reply("generation", json.dumps(ACME_APPLICATION))

    start = client.post(
        "/chat/start",
        json={
            "sessionId": SESSION_ID,
            "userContext": {
                "isPreFilled": True,
                "leadData": {"companyName": "Acme BV", "sbiDescription": "Software ontwikkeling"},
            },
        },
        headers=headers,
    )
    assert start.status_code == 200
    assert "Acme BV" in start.json()["message"]
    assert "Acme BV" in fake_provider.calls[0]["messages"][0]["content"]

    first = client.post(
        "/chat/message",
        json={"sessionId": SESSION_ID, "message": "Wij bouwen een adaptieve planner."},
        headers=headers,
    ).json()
    assert first["completeness"] == 44
    assert first["phase"] == "discovery"
    assert first["readyForGeneration"] is False

    second = client.post(
        "/chat/message",
        json={"sessionId": SESSION_ID, "message": "Team van 4, 12 maanden, RL + solver."},
        headers=headers,
    ).json()
    assert second["completeness"] == 100
    assert second["phase"] == "generation"
    assert second["readyForGeneration"] is True
    assert second["extractedInfo"]["companyInfo"]["name"] == "Acme BV"
    assert second["extractedInfo"]["teamSize"] == "4"

    generated = client.post("/chat/generate", json={"sessionId": SESSION_ID}, headers=headers)
    assert generated.status_code == 200
    application = generated.json()
    assert application["costBreakdown"]["netCosts"] == 66560
    assert application["activities"]

    stats = client.get(f"/chat/stats/{SESSION_ID}", headers=headers).json()
    assert stats["messageCount"] == 5
    assert stats["completeness"] == 100
    # greeting + 2 x (chat + extração) + geração
    assert stats["tokenCount"] == 6 * 250

    # Sessão concluída continua aceitando perguntas, sem voltar a gerar
    after = client.post(
        "/chat/message",
        json={"sessionId": SESSION_ID, "message": "Wanneer moet ik indienen?"},
        headers=headers,
    ).json()
    assert after["phase"] == "complete"
    assert after["readyForGeneration"] is False


def test_top_level_company_name_flow(client: TestClient, fake_provider: FakeProvider) -> None:
    headers = auth_headers("founder")
    fake_provider.reply("chat", "Welkom Acme BV!", "Vertel meer.", "Dank u.")
    fake_provider.reply(
        "extraction",
        json.dumps(fields("projectTitle", "projectType", "problemDescription", "companyInfo")),
        json.dumps(
            fields(
                "proposedSolution",
                "technicalChallenges",
                "innovationAspects",
                "timeline",
                "teamSize",
            )
        ),
    )
    fake_provider.reply("generation", json.dumps(ACME_APPLICATION))

    start = client.post(
        "/chat/start",
        json={
            "sessionId": SESSION_ID,
            "userContext": {"isPreFilled": True, "companyName": "Acme BV"},
        },
        headers=headers,
    )
    assert start.status_code == 200
    greeting_prompt = fake_provider.calls[0]["messages"][0]["content"]
    assert greeting_prompt.startswith("Ik wil een WBSO-aanvraag maken voor Acme BV")

    for text, expected in (("Wij bouwen een planner.", 44), ("Team van 4.", 100)):
        turn = client.post(
            "/chat/message", json={"sessionId": SESSION_ID, "message": text}, headers=headers
        ).json()
        assert turn["completeness"] == expected

    generated = client.post("/chat/generate", json={"sessionId": SESSION_ID}, headers=headers)
    assert generated.status_code == 200
    assert generated.json()["costBreakdown"]["netCosts"] == 66560


def test_conversation_history_is_sent_to_provider(
    client: TestClient, fake_provider: FakeProvider
) -> None:
    headers = auth_headers()
    client.post("/chat/start", json={"sessionId": SESSION_ID}, headers=headers)
    for text in ("Eerste bericht", "Tweede bericht"):
        client.post(
            "/chat/message", json={"sessionId": SESSION_ID, "message": text}, headers=headers
        )

    last_chat = fake_provider.calls_of("chat")[-1]
    roles = [m["role"] for m in last_chat["messages"]]
    assert roles == ["assistant", "user", "assistant", "user"]
    assert last_chat["messages"][-1]["content"] == "Tweede bericht"
