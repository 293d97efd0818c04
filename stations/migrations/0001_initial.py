# Generated migration file for initial database schema

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Platform',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive')], default='active', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='RadCheck',
            fields=[
                ('id', models.AutoField(primary_key=True, serialize=False)),
                ('username', models.CharField(db_index=True, max_length=64)),
                ('attribute', models.CharField(max_length=64)),
                ('op', models.CharField(default=':=', max_length=2)),
                ('value', models.CharField(max_length=253)),
            ],
            options={
                'db_table': 'radcheck',
            },
        ),
        migrations.CreateModel(
            name='RadReply',
            fields=[
                ('id', models.AutoField(primary_key=True, serialize=False)),
                ('username', models.CharField(db_index=True, max_length=64)),
                ('attribute', models.CharField(max_length=64)),
                ('op', models.CharField(default='=', max_length=2)),
                ('value', models.CharField(max_length=253)),
            ],
            options={
                'db_table': 'radreply',
            },
        ),
        migrations.CreateModel(
            name='RadUserGroup',
            fields=[
                ('id', models.AutoField(primary_key=True, serialize=False)),
                ('username', models.CharField(db_index=True, max_length=64)),
                ('groupname', models.CharField(max_length=64)),
                ('priority', models.IntegerField(default=1)),
            ],
            options={
                'db_table': 'radusergroup',
            },
        ),
        migrations.CreateModel(
            name='PPPoEPlan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('profile', models.CharField(blank=True, max_length=100)),
                ('price', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('platform', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pppoe_plans', to='stations.platform')),
            ],
            options={
                'verbose_name': 'PPPoE plan',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Station',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('mikrotik_host', models.CharField(max_length=255)),
                ('mikrotik_public_host', models.CharField(blank=True, max_length=255)),
                ('mikrotik_ddns', models.CharField(blank=True, max_length=255)),
                ('mikrotik_public_key', models.CharField(max_length=64)),
                ('mikrotik_user', models.CharField(default='admin', max_length=100)),
                ('mikrotik_password', models.CharField(blank=True, max_length=512)),
                ('mikrotik_port', models.IntegerField(default=8728)),
                ('system_basis', models.CharField(choices=[('API', 'Router API'), ('RADIUS', 'RADIUS')], default='API', max_length=10)),
                ('radius_client_name', models.CharField(blank=True, max_length=64, null=True)),
                ('radius_client_secret', models.CharField(blank=True, max_length=64)),
                ('radius_client_ip', models.CharField(blank=True, max_length=64)),
                ('radius_server_ip', models.CharField(blank=True, max_length=64)),
                ('router_synced', models.BooleanField(default=True)),
                ('last_migrated_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('platform', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='stations', to='stations.platform')),
            ],
            options={
                'ordering': ['platform', 'name'],
                'unique_together': {('platform', 'mikrotik_host'), ('platform', 'radius_client_name')},
            },
        ),
        migrations.CreateModel(
            name='Package',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('speed', models.CharField(blank=True, max_length=20)),
                ('period', models.CharField(blank=True, max_length=50)),
                ('usage', models.CharField(default='Unlimited', max_length=50)),
                ('category', models.CharField(choices=[('hotspot', 'Hotspot'), ('data', 'Data'), ('homefibre', 'Home Fibre')], default='hotspot', max_length=20)),
                ('devices', models.CharField(default='1', max_length=20)),
                ('price', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('pool', models.CharField(blank=True, max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('platform', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='packages', to='stations.platform')),
                ('station', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='packages', to='stations.station')),
            ],
            options={
                'ordering': ['station', 'name'],
            },
        ),
        migrations.CreateModel(
            name='Subscriber',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('username', models.CharField(blank=True, max_length=100)),
                ('password', models.CharField(blank=True, max_length=100)),
                ('code', models.CharField(blank=True, max_length=50)),
                ('phone', models.CharField(blank=True, max_length=20)),
                ('status', models.CharField(choices=[('active', 'Active'), ('expired', 'Expired'), ('suspended', 'Suspended')], default='active', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('package', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='subscribers', to='stations.package')),
                ('platform', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='subscribers', to='stations.platform')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='PPPoEEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(blank=True, max_length=100)),
                ('clientname', models.CharField(max_length=100)),
                ('clientpassword', models.CharField(max_length=100)),
                ('profile', models.CharField(default='default', max_length=100)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('suspended', 'Suspended')], default='active', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('plan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='entries', to='stations.pppoeplan')),
                ('platform', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pppoe_entries', to='stations.platform')),
                ('station', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pppoe_entries', to='stations.station')),
            ],
            options={
                'verbose_name': 'PPPoE entry',
                'verbose_name_plural': 'PPPoE entries',
                'ordering': ['clientname'],
            },
        ),
        migrations.CreateModel(
            name='PlatformAdmin',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('superuser', 'Superuser'), ('admin', 'Admin')], default='admin', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('platform', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='admins', to='stations.platform')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='platform_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'unique_together': {('platform', 'user')},
            },
        ),
    ]
