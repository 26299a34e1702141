import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Patient",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("clinic_id", models.UUIDField(db_index=True)),
                ("first_name", models.CharField(max_length=128)),
                ("middle_name", models.CharField(blank=True, default="", max_length=128)),
                ("last_name", models.CharField(max_length=128)),
                ("curp", models.CharField(blank=True, default="", max_length=18)),
                ("phone", models.CharField(blank=True, default="", max_length=32)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
            ],
            options={
                "db_table": "patients_patient",
                "indexes": [
                    models.Index(fields=["clinic_id", "last_name"], name="patients_clinic_last_name_idx"),
                ],
            },
        ),
    ]
