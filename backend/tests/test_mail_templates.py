from fastapi import BackgroundTasks

from app.services.mail import MAIL_TEMPLATES, render_mail_template, schedule_inquiry_email


def test_booking_inquiry_renders_sample_context() -> None:
    definition = MAIL_TEMPLATES["booking_inquiry"]

    message = render_mail_template("booking_inquiry", definition.sample_context)

    assert message.subject == "New Booking Inquiry from Aiko Tanaka"
    assert "Room Type: Sakura Room - Japanese Style" in message.text
    assert "Date Range: 2025-04-01 to 2025-04-05" in message.text
    assert message.text.rstrip().endswith("Pica Inn")
    assert "<strong>Number of Guests:</strong> 2" in message.html


def test_html_body_escapes_guest_input() -> None:
    context = {**MAIL_TEMPLATES["booking_inquiry"].sample_context, "full_name": "<b>Aiko</b>"}

    message = render_mail_template("booking_inquiry", context)

    assert "&lt;b&gt;Aiko&lt;/b&gt;" in message.html
    assert "Name: <b>Aiko</b>" in message.text


def test_schedule_inquiry_email_queues_delivery() -> None:
    tasks = BackgroundTasks()

    message = schedule_inquiry_email(
        tasks,
        full_name="Aiko Tanaka",
        email="aiko@example.com",
        room_label="Sakura Room - Japanese Style",
        guests=2,
        contact_app="LINE",
        date_range="Not selected",
    )

    assert message.reply_to == "aiko@example.com"
    assert len(tasks.tasks) == 1
    assert tasks.tasks[0].args == ("frontdesk@picainn.test", message)
