from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('archive', 'Archive'), ('register', 'Register'), ('bulk_register', 'Bulk Register'), ('mark_due', 'Mark Due'), ('deposit', 'Deposit'), ('clear', 'Clear'), ('bounce', 'Bounce'), ('replace', 'Replace'), ('withdraw', 'Withdraw'), ('cancel', 'Cancel')], max_length=20)),
                ('model', models.CharField(max_length=100)),
                ('record_id', models.CharField(blank=True, max_length=50)),
                ('changes', models.JSONField(blank=True, default=dict)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-timestamp', '-id'],
                'indexes': [models.Index(fields=['model', 'record_id'], name='idx_audit_model_record')],
            },
        ),
    ]
